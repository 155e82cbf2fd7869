"""
NinjaRMM Ticket Class

This module provides a class-based approach to handling NinjaRMM tickets,
encapsulating the payload parsing and attribute lookups used during sync.
"""

from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field

from .utils import get_attribute_value


@dataclass
class TicketStatus:
    """Represents a NinjaRMM ticket status."""
    name: str = ""
    display_name: str = ""

    @classmethod
    def from_ninja_data(cls, status_data: Optional[Dict[str, Any]]) -> Optional['TicketStatus']:
        """Create TicketStatus from NinjaRMM API data."""
        if not status_data:
            return None

        return cls(
            name=status_data.get("name", "") or "",
            display_name=status_data.get("displayName", "") or ""
        )


@dataclass
class TicketAttributeValue:
    """Represents a single custom attribute value on a ticket."""
    attribute_id: int
    value: Any = None

    @classmethod
    def from_ninja_data(cls, attribute_data: Dict[str, Any]) -> 'TicketAttributeValue':
        """Create TicketAttributeValue from NinjaRMM API data."""
        return cls(
            attribute_id=attribute_data.get("attributeId"),
            value=attribute_data.get("value")
        )


@dataclass
class NinjaTicket:
    """
    Represents a NinjaRMM ticket.

    Tickets are read-only to the sync: every field here is taken verbatim from
    the ticketing API. Attribute values are sparse, so a missing attribute
    means "unset" rather than false.
    """

    id: int
    summary: str = ""
    device: Optional[str] = None
    location: Optional[str] = None
    create_time: Optional[int] = None
    status: Optional[TicketStatus] = None
    tags: List[str] = field(default_factory=list)
    attribute_values: List[TicketAttributeValue] = field(default_factory=list)

    @classmethod
    def from_ninja_data(cls, ticket_data: Dict[str, Any]) -> 'NinjaTicket':
        """
        Create NinjaTicket from a raw ticket row returned by a board run.

        Args:
            ticket_data: Raw NinjaRMM ticket data from API

        Returns:
            NinjaTicket instance populated with NinjaRMM data
        """
        raw_attributes = ticket_data.get("attributeValues") or []
        attribute_values = [
            TicketAttributeValue.from_ninja_data(attr)
            for attr in raw_attributes
            if isinstance(attr, dict)
        ]

        return cls(
            id=int(ticket_data.get("id")),
            summary=ticket_data.get("summary") or "",
            device=ticket_data.get("device") or None,
            location=ticket_data.get("location") or None,
            create_time=ticket_data.get("createTime"),
            status=TicketStatus.from_ninja_data(ticket_data.get("status")),
            tags=list(ticket_data.get("tags") or []),
            attribute_values=attribute_values
        )

    def get_status_name(self) -> str:
        """Get the status display name, or 'Unknown' if no status."""
        if self.status and self.status.display_name:
            return self.status.display_name
        return "Unknown"

    def get_attribute_value(self, attribute_id: Optional[int]) -> Any:
        """Get a custom attribute value by ID, or None if unset."""
        return get_attribute_value(self.attribute_values, attribute_id)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert NinjaTicket back to the API dictionary format.

        Returns:
            Dictionary representation of the ticket
        """
        return {
            "id": self.id,
            "summary": self.summary,
            "device": self.device,
            "location": self.location,
            "createTime": self.create_time,
            "status": {
                "name": self.status.name,
                "displayName": self.status.display_name
            } if self.status else None,
            "tags": list(self.tags),
            "attributeValues": [
                {"attributeId": attr.attribute_id, "value": attr.value}
                for attr in self.attribute_values
            ]
        }

    def __str__(self) -> str:
        """String representation of the ticket."""
        summary = self.summary[:60] + ("..." if len(self.summary) > 60 else "")
        return f"NinjaTicket(#{self.id}: {summary})"

    def __repr__(self) -> str:
        """Detailed string representation of the ticket."""
        return (
            f"NinjaTicket(id={self.id}, device='{self.device}', "
            f"status='{self.get_status_name()}', create_time={self.create_time})"
        )
