"""
glTF Format Utilities

Helper functions for reading and writing nested fields of a glTF JSON
document without tripping over missing keys or wrong types.
"""

from typing import Any, Dict, Iterator, Optional, Sequence, Tuple


def get_field(obj: Any, field_name: str, default: Any = None) -> Any:
    """
    Get a field from a dict, treating None values as missing

    Args:
        obj: Dict to extract field from (anything else yields the default)
        field_name: Name of field to extract
        default: Default value if field not found

    Returns:
        Field value or default
    """
    if not isinstance(obj, dict):
        return default
    value = obj.get(field_name)
    return value if value is not None else default


def get_path(obj: Any, path: Sequence[str], default: Any = None) -> Any:
    """
    Follow a chain of keys, e.g. ("extensions", "VRMC_materials_mtoon", "shadeMultiplyTexture")

    Returns:
        Value at the end of the chain or default if any link is missing
    """
    current = obj
    for key in path:
        current = get_field(current, key)
        if current is None:
            return default
    return current


def get_dict_field(obj: Any, field_name: str) -> Dict[str, Any]:
    """Get a dict field, returning an empty dict when absent or malformed"""
    value = get_field(obj, field_name)
    return value if isinstance(value, dict) else {}


def get_list_field(obj: Any, field_name: str, default: Optional[list] = None) -> list:
    """
    Get list field

    Args:
        obj: Dict to extract field from
        field_name: Name of list field to extract
        default: Default value if field not found

    Returns:
        List value or default (empty list if default is None)
    """
    if default is None:
        default = []

    value = get_field(obj, field_name, default)

    # Ensure we return a list
    if not isinstance(value, list):
        return default

    return value


def get_index(obj: Any, field_name: str) -> Optional[int]:
    """Get an integer index field, rejecting bools and negative values"""
    value = get_field(obj, field_name)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        return None
    return value


def ensure_path(obj: Dict[str, Any], path: Sequence[str]) -> Dict[str, Any]:
    """
    Walk a chain of keys, creating empty dicts along the way

    Returns:
        The dict at the end of the chain
    """
    current = obj
    for key in path:
        child = current.get(key)
        if not isinstance(child, dict):
            child = {}
            current[key] = child
        current = child
    return current


def safe_iterate(obj: Any, field_name: str) -> Iterator[Tuple[int, Any]]:
    """
    Safely iterate over a list field, yielding (index, item) tuples

    Args:
        obj: Dict containing the list field
        field_name: Name of list field to iterate

    Yields:
        (index, item) tuples
    """
    items = get_list_field(obj, field_name, [])
    for idx, item in enumerate(items):
        yield idx, item
