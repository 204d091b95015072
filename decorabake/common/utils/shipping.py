from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..errors import ValidationError


# carrier key -> (label, tracking base url); the tracking number is appended to the base
CARRIERS: Dict[str, tuple] = {
    "australia-post": ("Australia Post", "https://auspost.com.au/mypost/track/#/details/"),
    "startrack": ("StarTrack", "https://startrack.com.au/track/"),
    "aramex": ("Aramex", "https://www.aramex.com/track/results?ShipmentNumber="),
    "dhl": ("DHL Express", "https://www.dhl.com/au-en/home/tracking/tracking-express.html?submit=1&tracking-id="),
    "tnt": ("TNT", "https://www.tnt.com/express/en_au/site/shipping-tools/track.html?searchType=CON&cons="),
    "fedex": ("FedEx", "https://www.fedex.com/fedextrack/?tracknumbers="),
    "sendle": ("Sendle", "https://track.sendle.com/tracking?ref="),
    "couriers-please": ("Couriers Please", "https://www.couriersplease.com.au/tools-track?id="),
    "other": ("Other", ""),
}


def resolve_tracking_url(carrier: Optional[str], tracking_number: str, tracking_url: Optional[str] = None) -> str:
    """Explicit URL wins; otherwise build one from a known carrier's base, else blank."""
    if tracking_url and tracking_url.strip():
        return tracking_url.strip()
    _, base = CARRIERS.get((carrier or "").strip().lower(), ("", ""))
    return f"{base}{tracking_number}" if base else ""


@dataclass(frozen=True)
class ShippingData:
    tracking_number: str
    courier: str = ""
    tracking_url: str = ""
    delivery_days: str = ""

    @classmethod
    def from_mapping(cls, data: Optional[Dict[str, Any]]) -> "ShippingData":
        data = data or {}
        number = str(data.get("tracking_number") or "").strip()
        if not number:
            raise ValidationError("tracking_number is required to mark an order shipped", field="tracking_number")
        courier = str(data.get("courier") or data.get("carrier") or "").strip().lower()
        return cls(
            tracking_number=number,
            courier=courier,
            tracking_url=resolve_tracking_url(courier, number, data.get("tracking_url")),
            delivery_days=str(data.get("delivery_days") or "").strip(),
        )
