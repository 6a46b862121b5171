from fastorm.schema.introspector import DatabaseIntrospector
from fastorm.schema.type_mapper import map_native_type
from fastorm.schema.schema_reader import SchemaFileReader
from fastorm.schema.generator import ModelGenerator

__all__ = ["DatabaseIntrospector", "map_native_type", "SchemaFileReader", "ModelGenerator"]
