"""
Models module: declarative Base, CommonFields mixin and entity helpers.
"""

from record_access.models.base import Base, CommonFields
from record_access.models.entity import (
    Target,
    is_mapped_class,
    is_mapped_instance,
    model_of,
    resolve_table,
    table_name,
    has_column,
    resolve_column,
    primary_key_column,
    primary_key_attribute,
    primary_key_value,
    column_attribute,
    is_blank,
)

__all__ = [
    "Base",
    "CommonFields",
    "Target",
    "is_mapped_class",
    "is_mapped_instance",
    "model_of",
    "resolve_table",
    "table_name",
    "has_column",
    "resolve_column",
    "primary_key_column",
    "primary_key_attribute",
    "primary_key_value",
    "column_attribute",
    "is_blank",
]
