"""
Table and bucket declarations.
"""

from typing import Any, TYPE_CHECKING

from cirrus.core.declaration import Declaration, ResourceKind

if TYPE_CHECKING:
    from cirrus.core.stack import Stack


def declare_table(
    stack: "Stack",
    logical_name: str,
    hash_key: str,
    attributes: dict[str, str],
    name: str | None = None,
    range_key: str | None = None,
    read_capacity: int = 5,
    write_capacity: int = 5,
    stream_view_type: str | None = None,
) -> Declaration:
    """
    Declare a key-value table.

    Args:
        stack: Stack to declare into
        logical_name: Logical name of the table
        hash_key: Partition key attribute
        attributes: Key attribute name -> type ("S", "N" or "B")
        name: Table name (defaults to logical_name)
        range_key: Optional sort key attribute
        read_capacity: Provisioned read capacity units
        write_capacity: Provisioned write capacity units
        stream_view_type: Enables the change stream with this view type
            (KEYS_ONLY, NEW_IMAGE, OLD_IMAGE, NEW_AND_OLD_IMAGES)

    Returns:
        The Table declaration
    """
    properties: dict[str, Any] = {
        "name": name or logical_name,
        "hash_key": hash_key,
        "read_capacity": read_capacity,
        "write_capacity": write_capacity,
        "attributes": [
            {"name": attribute, "type": attribute_type}
            for attribute, attribute_type in attributes.items()
        ],
        "stream_enabled": stream_view_type is not None,
    }
    if range_key is not None:
        properties["range_key"] = range_key
    if stream_view_type is not None:
        properties["stream_view_type"] = stream_view_type

    return stack.declare(ResourceKind.TABLE, logical_name, properties)


def declare_bucket(stack: "Stack", logical_name: str, bucket: str) -> Declaration:
    """Declare an object storage bucket."""
    return stack.declare(ResourceKind.BUCKET, logical_name, {"bucket": bucket})
