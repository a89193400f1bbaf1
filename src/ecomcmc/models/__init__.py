"""
Built-in model variants.

Importing this package registers:
- 'parametric': Shared Normal/Inverse-Wishart prior, 2x2 tables
- 'dp': Dirichlet process mixture of Normals, 2x2 tables
- 'parametric_2c': Shared Normal/Inverse-Wishart prior, 2xC tables
"""

from ..registry import register_model, list_models
from . import parametric, dp, parametric_2c

BUILTIN_MODELS = {
    'parametric': parametric.MODEL,
    'dp': dp.MODEL,
    'parametric_2c': parametric_2c.MODEL,
}


def register_builtin_models():
    """Register the built-in variants that are not registered yet."""
    registered = set(list_models())
    for name, config in BUILTIN_MODELS.items():
        if name not in registered:
            register_model(name, config)


register_builtin_models()
