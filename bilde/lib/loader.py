import importlib


def load_backend(spec: str) -> type:
    """Import a backend class from a 'module:ClassName' string."""
    if ":" not in spec:
        raise ValueError(
            f"Invalid backend spec '{spec}': must be in format 'module:ClassName'"
        )
    parts = spec.split(":")
    if len(parts) != 2:
        raise ValueError(
            f"Invalid backend spec '{spec}': must contain exactly one colon"
        )
    module_path, class_name = parts
    module = importlib.import_module(module_path)
    return getattr(module, class_name)
