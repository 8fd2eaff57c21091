"""
Shared pytest fixtures.

The app fixture pushes one application context for the whole test, so
fixtures, services and test-client requests all share one session on an
in-memory SQLite database.
"""
import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from sejenak import create_app
from sejenak.extensions import db
from sejenak.models import (
    Booking,
    Branch,
    Member,
    PointRule,
    PointsHistory,
    Profile,
    Reward,
    Therapist,
    Treatment,
    seed_default_tiers,
    MemberTier,
)


@pytest.fixture
def app():
    """Create test application."""
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_headers():
    return {'X-User-Id': 'user_admin', 'X-User-Role': 'admin'}


@pytest.fixture
def customer_headers(sample_customer):
    return {'X-User-Id': sample_customer.id, 'X-User-Role': 'customer'}


@pytest.fixture
def sample_customer(app):
    """A customer profile with default notification preferences."""
    profile = Profile(
        id='user_alya',
        full_name='Alya Putri',
        email='alya@example.com',
        role='customer',
    )
    db.session.add(profile)
    db.session.commit()
    return profile


@pytest.fixture
def other_customer(app):
    profile = Profile(
        id='user_bima',
        full_name='Bima Santoso',
        email='bima@example.com',
        role='customer',
    )
    db.session.add(profile)
    db.session.commit()
    return profile


@pytest.fixture
def sample_tiers(app):
    """Grace, Signature and Elite, lowest first."""
    seed_default_tiers()
    return MemberTier.query.order_by(MemberTier.sort_order).all()


@pytest.fixture
def sample_member(app, sample_customer, sample_tiers):
    """A Grace member holding 500 points backed by one earned history line."""
    member = Member(user_id=sample_customer.id, total_points=500, lifetime_points=500, stamps=3, tier='Grace')
    db.session.add(member)
    db.session.add(PointsHistory(
        user_id=sample_customer.id,
        points=500,
        type='earned',
        description='Opening balance',
        created_at=datetime.utcnow() - timedelta(days=10),
    ))
    db.session.commit()
    return member


@pytest.fixture
def sample_rule(app):
    """10 points per 100,000 spent."""
    rule = PointRule(name='Base earning', spend_amount=Decimal('100000'), point_earned=10, expiry=12)
    db.session.add(rule)
    db.session.commit()
    return rule


@pytest.fixture
def sample_reward(app):
    reward = Reward(name='Free Hair Spa', method='Point', required=100, quota=10, category='Hair')
    db.session.add(reward)
    db.session.commit()
    return reward


@pytest.fixture
def sample_catalog(app):
    """Two branches, two treatments and two therapists."""
    north = Branch(name='Sejenak Kemang')
    south = Branch(name='Sejenak Senopati')
    massage = Treatment(name='Balinese Massage', category='Massage', price=Decimal('350000'))
    facial = Treatment(name='Hydrating Facial Deluxe Treatment', category='Facial', price=Decimal('450000'))
    db.session.add_all([north, south, massage, facial])
    db.session.flush()

    dewi = Profile(id='staff_dewi', full_name='Dewi Lestari', role='therapist')
    sari = Profile(id='staff_sari', full_name='Sari Wulandari', role='therapist')
    db.session.add_all([dewi, sari])
    db.session.flush()

    therapist_dewi = Therapist(profile_id=dewi.id, branch_id=north.id)
    therapist_sari = Therapist(profile_id=sari.id, branch_id=south.id)
    db.session.add_all([therapist_dewi, therapist_sari])
    db.session.commit()
    return {
        'north': north,
        'south': south,
        'massage': massage,
        'facial': facial,
        'dewi': therapist_dewi,
        'sari': therapist_sari,
    }


@pytest.fixture
def sample_bookings(app, sample_customer, other_customer, sample_catalog):
    """
    Bookings inside the last 20 days:
    - Alya: 3 completed massages at Kemang (one done by Sari instead of Dewi)
    - Bima: 1 completed facial at Senopati, 1 cancelled facial with no branch
    """
    now = datetime.utcnow().replace(hour=10, minute=0, second=0, microsecond=0)
    c = sample_catalog
    bookings = [
        Booking(user_id=sample_customer.id, branch_id=c['north'].id, treatment_id=c['massage'].id,
                therapist_id=c['dewi'].id, booking_date=now - timedelta(days=15),
                total_price=Decimal('350000'), status='completed', payment_status='paid'),
        Booking(user_id=sample_customer.id, branch_id=c['north'].id, treatment_id=c['massage'].id,
                therapist_id=c['dewi'].id, actual_therapist_id=c['sari'].id,
                booking_date=now - timedelta(days=8), total_price=Decimal('350000'), status='completed'),
        Booking(user_id=sample_customer.id, branch_id=c['north'].id, treatment_id=c['massage'].id,
                therapist_id=c['dewi'].id, booking_date=now - timedelta(days=2),
                total_price=Decimal('350000'), status='Completed', payment_status='paid'),
        Booking(user_id=other_customer.id, branch_id=c['south'].id, treatment_id=c['facial'].id,
                therapist_id=c['sari'].id, booking_date=now - timedelta(days=5),
                total_price=Decimal('450000'), status='completed', payment_status='paid'),
        Booking(user_id=other_customer.id, branch_id=None, treatment_id=c['facial'].id,
                therapist_id=c['sari'].id, booking_date=now - timedelta(days=3),
                total_price=Decimal('450000'), status='cancelled'),
    ]
    db.session.add_all(bookings)
    db.session.commit()
    return bookings
