from tradetrends.models.deal import Deal, DealStatus, Network
from tradetrends.models.click import ClickEvent, hash_ip, utc_now_iso
from tradetrends.models.flags import EmergencyFlags

__all__ = [
    "Deal", "DealStatus", "Network",
    "ClickEvent", "hash_ip", "utc_now_iso",
    "EmergencyFlags",
]
