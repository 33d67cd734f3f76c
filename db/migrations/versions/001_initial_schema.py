"""initial_schema

Revision ID: 001
Revises:
Create Date: 2026-10-18 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None

user_role = sa.Enum('DRIVER', 'STAFF', 'ADMIN', name='userrole')
battery_status = sa.Enum('AVAILABLE', 'PENDING', 'IN_USE', 'CHARGING', 'MAINTENANCE', name='batterystatus')
booking_status = sa.Enum('PENDING', 'CONFIRMED', 'CANCELLED', 'COMPLETED', name='bookingstatus')
subscription_status = sa.Enum('ACTIVE', 'EXPIRED', 'CANCELLED', name='subscriptionstatus')
payment_status = sa.Enum('PENDING', 'COMPLETED', 'FAILED', name='paymentstatus')


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('full_name', sa.String(), nullable=False),
        sa.Column('phone_number', sa.String(), nullable=True, unique=True),
        sa.Column('role', user_role, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'battery_types',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('capacity', sa.Numeric(8, 2), nullable=True),
    )

    op.create_table(
        'stations',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('location', sa.String(), nullable=True),
        sa.Column('district', sa.String(), nullable=True),
        sa.Column('city', sa.String(), nullable=True),
        sa.Column('contact_info', sa.String(), nullable=True),
        sa.Column('battery_type_id', sa.Integer(), sa.ForeignKey('battery_types.id'), nullable=True),
    )

    op.create_table(
        'vehicles',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('driver_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('model', sa.String(), nullable=True),
        sa.Column('plate_number', sa.String(), nullable=False, unique=True),
    )
    op.create_index('ix_vehicles_driver_id', 'vehicles', ['driver_id'])

    # batteries <-> bookings reference each other; the batteries side FK is added after bookings exists
    op.create_table(
        'batteries',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('model', sa.String(), nullable=True),
        sa.Column('status', battery_status, nullable=False),
        sa.Column('current_station_id', sa.Integer(), sa.ForeignKey('stations.id'), nullable=True),
        sa.Column('reserved_for_booking_id', sa.Integer(), nullable=True),
        sa.Column('reservation_expiry', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_batteries_status', 'batteries', ['status'])
    op.create_index('ix_batteries_current_station_id', 'batteries', ['current_station_id'])
    op.create_index('ix_batteries_reservation_expiry', 'batteries', ['reservation_expiry'])

    op.create_table(
        'bookings',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('driver_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('station_id', sa.Integer(), sa.ForeignKey('stations.id'), nullable=False),
        sa.Column('vehicle_id', sa.Integer(), sa.ForeignKey('vehicles.id'), nullable=False),
        sa.Column(
            'reserved_battery_id', sa.Integer(),
            sa.ForeignKey('batteries.id', name='fk_bookings_reserved_battery_id'),
            nullable=True,
        ),
        sa.Column('reservation_expiry', sa.DateTime(timezone=True), nullable=True),
        sa.Column('booking_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('confirmation_code', sa.String(length=32), nullable=True, unique=True),
        sa.Column('status', booking_status, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_bookings_driver_id', 'bookings', ['driver_id'])
    op.create_index('ix_bookings_status', 'bookings', ['status'])
    op.create_foreign_key(
        'fk_batteries_reserved_for_booking_id', 'batteries', 'bookings',
        ['reserved_for_booking_id'], ['id'],
    )

    op.create_table(
        'service_packages',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('max_swaps', sa.Integer(), nullable=False),
        sa.Column('duration', sa.Integer(), nullable=False),
    )

    op.create_table(
        'driver_subscriptions',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('driver_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('service_package_id', sa.Integer(), sa.ForeignKey('service_packages.id'), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('status', subscription_status, nullable=False),
        sa.Column('remaining_swaps', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_driver_subscriptions_driver_id', 'driver_subscriptions', ['driver_id'])
    op.create_index('ix_driver_subscriptions_end_date', 'driver_subscriptions', ['end_date'])
    op.create_index('ix_driver_subscriptions_status', 'driver_subscriptions', ['status'])
    # One ACTIVE subscription per driver
    op.create_index(
        'uq_driver_subscriptions_one_active',
        'driver_subscriptions',
        ['driver_id'],
        unique=True,
        postgresql_where=sa.text("status = 'ACTIVE'"),
        sqlite_where=sa.text("status = 'ACTIVE'"),
    )

    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('subscription_id', sa.Integer(), sa.ForeignKey('driver_subscriptions.id'), nullable=True),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('payment_method', sa.String(), nullable=False),
        sa.Column('payment_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', payment_status, nullable=False),
        sa.Column('order_id', sa.String(), nullable=True),
        sa.Column('transaction_code', sa.String(), nullable=True),
    )
    op.create_index('ix_payments_subscription_id', 'payments', ['subscription_id'])
    op.create_index('ix_payments_status', 'payments', ['status'])
    op.create_index('ix_payments_order_id', 'payments', ['order_id'], unique=True)


def downgrade() -> None:
    op.drop_table('payments')
    op.drop_index('uq_driver_subscriptions_one_active', table_name='driver_subscriptions')
    op.drop_table('driver_subscriptions')
    op.drop_table('service_packages')
    op.drop_constraint('fk_batteries_reserved_for_booking_id', 'batteries', type_='foreignkey')
    op.drop_table('bookings')
    op.drop_table('batteries')
    op.drop_table('vehicles')
    op.drop_table('stations')
    op.drop_table('battery_types')
    op.drop_table('users')

    bind = op.get_bind()
    for enum_type in (payment_status, subscription_status, booking_status, battery_status, user_role):
        enum_type.drop(bind, checkfirst=True)
