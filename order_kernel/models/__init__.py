"""ORM models for the order kernel."""

from order_kernel.models.goods import Goods, PointGoods
from order_kernel.models.location import Location, LocationType
from order_kernel.models.order import PointOrder, PointOrderItem
from order_kernel.models.outbound_movement import MovementCause, OutboundMovement
from order_kernel.models.point import Point
from order_kernel.models.stock import StockBalance

__all__ = [
    "Goods",
    "PointGoods",
    "Location",
    "LocationType",
    "Point",
    "PointOrder",
    "PointOrderItem",
    "StockBalance",
    "OutboundMovement",
    "MovementCause",
]
