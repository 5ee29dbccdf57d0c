"""
测试配置文件
提供测试所需的fixtures：内存数据库、固定时钟、假支付网关和通知mock
"""

import random
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from ..api import deps
from ..app import create_app
from ..core.database import DatabaseManager
from ..core.exceptions import CollaboratorError
from ..core.security import security_manager
from ..services import (
    AvailabilityService,
    BookingService,
    NotificationDispatcher,
    OrderService,
    ProfileService,
)
from ..services.payment_service import PaymentGateway, PaymentSession

FIXED_NOW = datetime(2026, 10, 19, 12, 0)


class FakePaymentGateway(PaymentGateway):
    """记录调用的假支付网关"""

    def __init__(self):
        self.sessions = []
        self.settled = set()
        self.settle_all = True
        self.expired = set()
        self.fail_next = False

    def create_session(self, order_id, line_items, total_cents, success_url, cancel_url):
        if self.fail_next:
            self.fail_next = False
            raise CollaboratorError("fake", "Payment provider unavailable", order_id)
        session_id = f"cs_test_{len(self.sessions) + 1}"
        self.sessions.append({
            "session_id": session_id,
            "order_id": order_id,
            "total_cents": total_cents,
            "line_items": list(line_items),
            "success_url": success_url,
            "cancel_url": cancel_url,
        })
        return PaymentSession(session_id=session_id, url=f"https://pay.example/{session_id}")

    def is_settled(self, session_id):
        return self.settle_all or session_id in self.settled

    def is_open(self, session_id):
        return session_id not in self.expired and not self.is_settled(session_id)


@pytest.fixture
def test_db():
    """测试数据库"""
    db = DatabaseManager(":memory:")
    db.init_database()
    yield db
    db.close()


@pytest.fixture
def tomorrow():
    return (FIXED_NOW + timedelta(days=1)).date()


@pytest.fixture
def notifier():
    """通知后端mock，用于断言调用次数"""
    return MagicMock()


@pytest.fixture
def notifications(test_db, notifier):
    return NotificationDispatcher(notifier=notifier, db=test_db)


@pytest.fixture
def gateway():
    return FakePaymentGateway()


@pytest.fixture
def profile_service(test_db):
    return ProfileService(test_db)


@pytest.fixture
def availability_service(test_db):
    return AvailabilityService(test_db, duration_hours=2)


@pytest.fixture
def booking_service(test_db, availability_service, notifications, profile_service):
    return BookingService(
        test_db,
        availability=availability_service,
        notifications=notifications,
        profiles=profile_service,
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def order_service(test_db, booking_service, gateway, notifications, profile_service):
    return OrderService(
        test_db,
        booking=booking_service,
        gateway=gateway,
        notifications=notifications,
        profiles=profile_service,
        clock=lambda: FIXED_NOW,
        rng=random.Random(7),
    )


@pytest.fixture
def sample_user(profile_service):
    """留有电话的普通用户"""
    return profile_service.update_profile(
        "user-1", phone="+49 170 1234567", email="guest@example.com", display_name="Guest")


@pytest.fixture
def other_user(profile_service):
    return profile_service.update_profile("user-2", phone="+49 170 7654321", email="other@example.com")


@pytest.fixture
def admin_user(test_db, profile_service):
    """管理员用户"""
    profile_service.get_profile("admin-1")
    with test_db.transaction() as conn:
        conn.execute("UPDATE profiles SET is_admin = TRUE WHERE principal_id = ?", ["admin-1"])
    return profile_service.get_profile("admin-1")


@pytest.fixture
def reservation_payload(tomorrow):
    """预订请求数据"""
    return {
        "name": "Anna Schmidt",
        "email": "anna@example.com",
        "phone": "+49 170 1111111",
        "people": 4,
        "table_number": 5,
        "date": tomorrow,
        "time": "18:00",
        "event_type": "Birthday",
        "services": ["Decorations"],
        "notes": "Window seat please",
    }


@pytest.fixture
def client(profile_service, availability_service, booking_service, order_service):
    """测试客户端，路由依赖替换为测试服务"""
    app = create_app()
    app.dependency_overrides[deps.get_profile_service] = lambda: profile_service
    app.dependency_overrides[deps.get_availability_service] = lambda: availability_service
    app.dependency_overrides[deps.get_booking_service] = lambda: booking_service
    app.dependency_overrides[deps.get_order_service] = lambda: order_service
    return TestClient(app)


def auth_headers(principal_id: str):
    """认证请求头"""
    return {"Authorization": f"Bearer {security_manager.create_jwt_token(principal_id)}"}
