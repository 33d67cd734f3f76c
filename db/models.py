from sqlalchemy import Column, Integer, String, DateTime, Date, ForeignKey, Text, Numeric, Enum, Index, text
from sqlalchemy.orm import relationship, DeclarativeBase
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.sql import func
import enum


class Base(AsyncAttrs, DeclarativeBase):
    pass


class UserRole(enum.Enum):
    DRIVER = "DRIVER"
    STAFF = "STAFF"
    ADMIN = "ADMIN"


class BatteryStatus(enum.Enum):
    """Physical battery state at a station."""
    AVAILABLE = "AVAILABLE"
    PENDING = "PENDING"          # Held for a confirmed booking until reservation_expiry
    IN_USE = "IN_USE"
    CHARGING = "CHARGING"
    MAINTENANCE = "MAINTENANCE"


class BookingStatus(enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


class SubscriptionStatus(enum.Enum):
    """ACTIVE is the only non-terminal state."""
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


class PaymentStatus(enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class User(Base):
    """
    Account of a driver, station staff member or administrator.

    Only drivers own vehicles, bookings and subscriptions.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String, nullable=False, unique=True, index=True)
    full_name = Column(String, nullable=False)
    phone_number = Column(String, nullable=True, unique=True)
    role = Column(Enum(UserRole), nullable=False, default=UserRole.DRIVER)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    vehicles = relationship("Vehicle", back_populates="driver")
    bookings = relationship("Booking", back_populates="driver")
    subscriptions = relationship("DriverSubscription", back_populates="driver")

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role={self.role})>"


class BatteryType(Base):
    __tablename__ = "battery_types"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    capacity = Column(Numeric(8, 2), nullable=True)


class Station(Base):
    __tablename__ = "stations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    location = Column(String, nullable=True)
    district = Column(String, nullable=True)
    city = Column(String, nullable=True)
    contact_info = Column(String, nullable=True)
    battery_type_id = Column(Integer, ForeignKey("battery_types.id"), nullable=True)

    battery_type = relationship("BatteryType")
    batteries = relationship("Battery", back_populates="current_station")


class Vehicle(Base):
    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    driver_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    model = Column(String, nullable=True)
    plate_number = Column(String, nullable=False, unique=True)

    driver = relationship("User", back_populates="vehicles")


class Battery(Base):
    """
    Swappable battery pack.

    status == PENDING iff reservation_expiry is set and reserved_for_booking_id
    points at the booking holding it.
    """
    __tablename__ = "batteries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    model = Column(String, nullable=True)
    status = Column(Enum(BatteryStatus), nullable=False, default=BatteryStatus.AVAILABLE, index=True)
    current_station_id = Column(Integer, ForeignKey("stations.id"), nullable=True, index=True)
    reserved_for_booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=True)
    reservation_expiry = Column(DateTime(timezone=True), nullable=True, index=True)

    current_station = relationship("Station", back_populates="batteries")
    reserved_for_booking = relationship("Booking", foreign_keys=[reserved_for_booking_id])

    def __repr__(self):
        return f"<Battery(id={self.id}, status={self.status}, booking={self.reserved_for_booking_id})>"


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    driver_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    station_id = Column(Integer, ForeignKey("stations.id"), nullable=False)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=False)
    reserved_battery_id = Column(
        Integer,
        ForeignKey("batteries.id", use_alter=True, name="fk_bookings_reserved_battery_id"),
        nullable=True,
    )
    reservation_expiry = Column(DateTime(timezone=True), nullable=True)
    booking_time = Column(DateTime(timezone=True), nullable=False)
    confirmation_code = Column(String(32), nullable=True, unique=True)
    status = Column(Enum(BookingStatus), nullable=False, default=BookingStatus.PENDING, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    driver = relationship("User", back_populates="bookings")
    station = relationship("Station")
    vehicle = relationship("Vehicle")
    reserved_battery = relationship("Battery", foreign_keys=[reserved_battery_id], post_update=True)

    def __repr__(self):
        return f"<Booking(id={self.id}, status={self.status}, code='{self.confirmation_code}')>"


class ServicePackage(Base):
    """Catalog row. Read-only for the subscription lifecycle."""
    __tablename__ = "service_packages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(12, 2), nullable=False)
    max_swaps = Column(Integer, nullable=False)
    duration = Column(Integer, nullable=False)  # days

    subscriptions = relationship("DriverSubscription", back_populates="service_package")


class DriverSubscription(Base):
    """
    A driver's purchased package.

    driver_id: owner
    service_package_id: purchased package
    start_date / end_date: calendar validity window (inclusive end)
    status: ACTIVE, EXPIRED or CANCELLED
    remaining_swaps: 0 <= remaining_swaps <= service_package.max_swaps

    At most one ACTIVE row per driver (partial unique index).
    """
    __tablename__ = "driver_subscriptions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    driver_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    service_package_id = Column(Integer, ForeignKey("service_packages.id"), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False, index=True)
    status = Column(Enum(SubscriptionStatus), nullable=False, default=SubscriptionStatus.ACTIVE, index=True)
    remaining_swaps = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)

    driver = relationship("User", back_populates="subscriptions")
    service_package = relationship("ServicePackage", back_populates="subscriptions", lazy="selectin")
    payments = relationship("Payment", back_populates="subscription")

    __table_args__ = (
        Index(
            "uq_driver_subscriptions_one_active",
            "driver_id",
            unique=True,
            postgresql_where=text("status = 'ACTIVE'"),
            sqlite_where=text("status = 'ACTIVE'"),
        ),
    )

    def __repr__(self):
        return (f"<DriverSubscription(id={self.id}, driver_id={self.driver_id}, "
                f"status={self.status}, remaining={self.remaining_swaps}, ends='{self.end_date}')>")


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    subscription_id = Column(Integer, ForeignKey("driver_subscriptions.id"), nullable=True, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    payment_method = Column(String, nullable=False, default="MOMO")
    payment_date = Column(DateTime(timezone=True), nullable=False)
    status = Column(Enum(PaymentStatus), nullable=False, index=True)
    order_id = Column(String, nullable=True, unique=True, index=True)
    transaction_code = Column(String, nullable=True)

    subscription = relationship("DriverSubscription", back_populates="payments")
