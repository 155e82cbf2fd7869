"""
Monday Item Class

This module provides a class-based approach to handling Monday.com board
items, indexing their column values by column ID once on ingestion.
"""

from typing import Dict, Any, Optional
from dataclasses import dataclass, field
import re


@dataclass
class ColumnValue:
    """Represents one column value of a Monday.com item."""
    id: str
    title: str = ""
    type: str = ""
    text: str = ""
    value: Any = None

    @classmethod
    def from_monday_data(cls, column_data: Dict[str, Any]) -> 'ColumnValue':
        """Create ColumnValue from a Monday.com column_values entry."""
        column = column_data.get("column") or {}
        return cls(
            id=column_data.get("id", "") or column.get("id", ""),
            title=column.get("title", "") or "",
            type=column_data.get("type", "") or "",
            text=column_data.get("text") or "",
            value=column_data.get("value")
        )


@dataclass
class MondayItem:
    """
    Represents a Monday.com board item.

    The item name is the sequential display number assigned at creation; the
    NinjaRMM ticket ID lives in a separate linkage column.
    """

    id: str
    name: str = ""
    column_values: Dict[str, ColumnValue] = field(default_factory=dict)

    @classmethod
    def from_monday_data(cls, item_data: Dict[str, Any]) -> 'MondayItem':
        """
        Create MondayItem from Monday.com GraphQL item data.

        Args:
            item_data: Dictionary with id, name and column_values

        Returns:
            MondayItem instance with columns keyed by column ID
        """
        column_values = {}
        for raw_column in item_data.get("column_values") or []:
            column_value = ColumnValue.from_monday_data(raw_column)
            if column_value.id:
                column_values[column_value.id] = column_value

        return cls(
            id=str(item_data.get("id", "")),
            name=item_data.get("name", "") or "",
            column_values=column_values
        )

    def get_text(self, column_id: Optional[str]) -> str:
        """Rendered text of a column, or empty string if absent."""
        if not column_id:
            return ""
        column_value = self.column_values.get(column_id)
        return column_value.text if column_value else ""

    def get_text_by_title(self, title: str) -> Optional[str]:
        """Rendered text of the first column with the given title, or None."""
        for column_value in self.column_values.values():
            if column_value.title == title:
                return column_value.text
        return None

    def get_linkage_key(self, linkage_column_id: str) -> str:
        """NinjaRMM ticket ID stored on this item, or empty string if unlinked."""
        return self.get_text(linkage_column_id).strip()

    @property
    def item_number(self) -> Optional[int]:
        """Leading integer of the item name, or None if the name is not numeric."""
        match = re.match(r"\s*([+-]?\d+)", self.name or "")
        return int(match.group(1)) if match else None

    def __str__(self) -> str:
        """String representation of the item."""
        return f"MondayItem(name='{self.name}', id='{self.id}')"
