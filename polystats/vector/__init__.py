from polystats.vector.source import (  # noqa
    BurnValue,
    GeometryRecord,
    GeometrySource,
    list_class_fields,
)

__all__ = ["BurnValue", "GeometryRecord", "GeometrySource", "list_class_fields"]
