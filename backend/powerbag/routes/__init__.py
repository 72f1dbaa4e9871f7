from importlib import import_module

modules = [
    'users',
    'assets',
    'collections',
    'storylines',
    'info',
    'settings',
]

for m in modules:
    import_module(f'.{m}', __name__)

__all__ = modules
