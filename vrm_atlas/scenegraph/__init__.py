"""In-memory glTF/VRM scenegraph"""

from .model import Scenegraph, SchemaVersion, detect_schema_version

__all__ = ['Scenegraph', 'SchemaVersion', 'detect_schema_version']
