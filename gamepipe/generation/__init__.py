"""Template-backed module generation."""

from .generator import (
    DEFAULT_TEMPLATE_ID,
    GeneratedModule,
    GenerationError,
    ModuleFile,
    ModuleGenerator,
    ModuleRequest,
    default_entry_path,
    generate_module,
)

__all__ = [
    "DEFAULT_TEMPLATE_ID",
    "GeneratedModule",
    "GenerationError",
    "ModuleFile",
    "ModuleGenerator",
    "ModuleRequest",
    "default_entry_path",
    "generate_module",
]
