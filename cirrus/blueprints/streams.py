"""
Stream bindings from a table's change stream to a consumer function.

Records (inserts, updates and deletes, with old and new item images when
the table's view type carries them) are delivered at least once. Consumers
must tolerate redelivery; nothing here enforces that.
"""

from enum import Enum
from typing import TYPE_CHECKING

from cirrus.core.declaration import Declaration, ResourceKind
from cirrus.core.errors import ValidationError

if TYPE_CHECKING:
    from cirrus.core.stack import Stack


class StartingPosition(str, Enum):
    LATEST = "LATEST"
    TRIM_HORIZON = "TRIM_HORIZON"


def bind_stream(
    stack: "Stack",
    logical_name: str,
    table: Declaration,
    consumer: Declaration,
    starting_position: StartingPosition | str = StartingPosition.LATEST,
    batch_size: int = 100,
    tags: dict[str, str] | None = None,
) -> Declaration:
    """
    Bind a table's change stream to a consumer function.

    The binding references the table's stream ARN and the consumer's ARN,
    so it is provisioned only after both are Created.

    Raises:
        ValidationError: If the table does not have streaming enabled, or
            the starting position is unknown
    """
    if table.kind is not ResourceKind.TABLE:
        raise ValidationError(logical_name, f"'{table.logical_name}' is not a table")
    if not table.properties.get("stream_enabled"):
        raise ValidationError(
            logical_name, f"table '{table.logical_name}' does not have streaming enabled"
        )
    try:
        position = StartingPosition(starting_position)
    except ValueError:
        raise ValidationError(
            logical_name, f"unknown starting position '{starting_position}'"
        ) from None

    properties = {
        "event_source_arn": table.attr("stream_arn"),
        "function_name": consumer.attr("arn"),
        "starting_position": position.value,
        "batch_size": batch_size,
    }
    if tags:
        properties["tags"] = dict(tags)

    return stack.declare(ResourceKind.STREAM_BINDING, logical_name, properties)
