"""
服务实例与依赖注入
路由通过 Depends 获取服务，测试时可用 app.dependency_overrides 替换
"""

from ..services import (
    AvailabilityService,
    BookingService,
    NotificationDispatcher,
    OrderService,
    ProfileService,
)

profile_service = ProfileService()
notification_dispatcher = NotificationDispatcher()
availability_service = AvailabilityService()
booking_service = BookingService(
    availability=availability_service,
    notifications=notification_dispatcher,
    profiles=profile_service,
)
order_service = OrderService(
    booking=booking_service,
    notifications=notification_dispatcher,
    profiles=profile_service,
)


def get_profile_service() -> ProfileService:
    return profile_service


def get_availability_service() -> AvailabilityService:
    return availability_service


def get_booking_service() -> BookingService:
    return booking_service


def get_order_service() -> OrderService:
    return order_service
