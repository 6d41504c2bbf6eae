from importlib import import_module

modules = [
    'auth',
    'guardrails',
    'tool_guardrails',
    'workload_guardrails',
    'entities',
]

for m in modules:
    import_module(f'.{m}', __name__)

__all__ = modules
