# app/models/all_models.py
from sqlalchemy import (
    Column, String, Boolean, DateTime, ForeignKey, Text, Integer, Float, JSON, Enum, Table, Uuid,
)
from sqlalchemy.orm import declarative_base, relationship
import enum
import random
import uuid
from datetime import datetime
import pytz

Base = declarative_base()

# Timestamps are stored in UTC
UTC = pytz.utc


def utc_now():
    return datetime.now(UTC)


def as_utc(value):
    """Attach UTC to naive datetimes read back from backends that drop tzinfo."""
    if value is None or value.tzinfo is not None:
        return value
    return UTC.localize(value)


def _enum(enum_cls, name):
    return Enum(enum_cls, name=name, values_callable=lambda members: [m.value for m in members])


# Enums
class UserRole(str, enum.Enum):
    USER = "user"
    DRIVER = "driver"
    ADMIN = "admin"
    HOSPITAL_ADMIN = "hospital_admin"

class AmbulanceType(str, enum.Enum):
    BASIC = "basic"
    ADVANCED = "advanced"
    CRITICAL = "critical"
    PATIENT_TRANSPORT = "patient-transport"
    NEONATAL = "neonatal"

class AmbulanceStatus(str, enum.Enum):
    AVAILABLE = "available"
    BUSY = "busy"
    MAINTENANCE = "maintenance"
    OFFLINE = "offline"

class HospitalStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    UNDER_MAINTENANCE = "under_maintenance"

class EmergencyStatus(str, enum.Enum):
    PENDING = "pending"                          # Waiting for ambulance assignment
    ASSIGNED = "assigned"                        # Ambulance assigned, not yet moving
    EN_ROUTE = "en_route"                        # On the way to the patient
    ARRIVED_AT_PATIENT = "arrived_at_patient"
    TRANSPORTING = "transporting"                # Patient on board
    ARRIVED_AT_HOSPITAL = "arrived_at_hospital"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

class Severity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

class EmergencyType(str, enum.Enum):
    ACCIDENT = "accident"
    CARDIAC = "cardiac"
    RESPIRATORY = "respiratory"
    NEUROLOGICAL = "neurological"
    BURN = "burn"
    PREGNANCY = "pregnancy"
    TRAUMA = "trauma"
    OTHER = "other"

class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    REFUNDED = "refunded"
    FAILED = "failed"
    CANCELLED = "cancelled"

class PaymentMethod(str, enum.Enum):
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    INSURANCE = "insurance"
    HOSPITAL_COVERED = "hospital_covered"
    CASH = "cash"
    WALLET = "wallet"
    FREE = "free"

class PaymentGateway(str, enum.Enum):
    STRIPE = "stripe"
    PAYPAL = "paypal"
    RAZORPAY = "razorpay"
    CASH = "cash"
    INSURANCE = "insurance"
    HOSPITAL = "hospital"
    OTHER = "other"

class MessageStatus(str, enum.Enum):
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"


# Timeline event recorded for each status an emergency enters
TIMELINE_EVENTS = {
    EmergencyStatus.PENDING: "emergency_requested",
    EmergencyStatus.ASSIGNED: "ambulance_assigned",
    EmergencyStatus.EN_ROUTE: "ambulance_en_route",
    EmergencyStatus.ARRIVED_AT_PATIENT: "ambulance_arrived_at_patient",
    EmergencyStatus.TRANSPORTING: "patient_picked_up",
    EmergencyStatus.ARRIVED_AT_HOSPITAL: "arrived_at_hospital",
    EmergencyStatus.COMPLETED: "emergency_completed",
    EmergencyStatus.CANCELLED: "emergency_cancelled",
}

# ================================
# USERS
# ================================

hospital_administrators = Table(
    "hospital_administrators",
    Base.metadata,
    Column("hospital_id", Uuid, ForeignKey("hospitals.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    phone = Column(String(20), unique=True, nullable=False)
    password = Column(String(255), nullable=False)
    role = Column(_enum(UserRole, "user_role"), nullable=False, default=UserRole.USER)
    address = Column(JSON)                  # {street, city, state, zip_code, country}
    emergency_contacts = Column(JSON)       # [{name, relationship, phone}]
    health_info = Column(JSON)              # {blood_type, allergies, medical_conditions, medications}
    is_verified = Column(Boolean, default=False, nullable=False)
    otp_code = Column(String(6))
    otp_expires_at = Column(DateTime(timezone=True))
    last_lat = Column(Float)
    last_lng = Column(Float)
    last_location_at = Column(DateTime(timezone=True))
    device_token = Column(String(255))
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    # Relationships
    administered_hospitals = relationship(
        "Hospital", secondary=hospital_administrators, back_populates="administrators"
    )
    driven_ambulances = relationship("Ambulance", back_populates="driver")
    emergencies_as_patient = relationship(
        "Emergency", foreign_keys="Emergency.patient_id", back_populates="patient"
    )
    emergencies_requested = relationship(
        "Emergency", foreign_keys="Emergency.requested_by_id", back_populates="requested_by"
    )

# ================================
# HOSPITALS & AMBULANCES
# ================================

class Hospital(Base):
    __tablename__ = "hospitals"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(150), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    phone = Column(String(20), nullable=False)
    address = Column(JSON, nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    capacity_total = Column(Integer, nullable=False, default=10)
    capacity_available = Column(Integer, nullable=False, default=10)
    specialties = Column(JSON, default=list)
    operating_hours = Column(JSON)
    payment_methods = Column(JSON, default=list)
    rating_average = Column(Float, nullable=False, default=0.0)
    rating_count = Column(Integer, nullable=False, default=0)
    status = Column(_enum(HospitalStatus, "hospital_status"), nullable=False, default=HospitalStatus.ACTIVE)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    # Relationships
    administrators = relationship(
        "User", secondary=hospital_administrators, back_populates="administered_hospitals"
    )
    ambulances = relationship("Ambulance", back_populates="hospital")
    emergencies = relationship("Emergency", back_populates="hospital")
    payments = relationship("Payment", back_populates="hospital")

    __mapper_args__ = {"version_id_col": version}

    @property
    def emergency_capacity(self):
        return {"total": self.capacity_total, "available": self.capacity_available}

    @property
    def rating(self):
        return {"average": self.rating_average, "count": self.rating_count}

    @property
    def location(self):
        return {"lat": self.latitude, "lng": self.longitude}

    def is_administered_by(self, user) -> bool:
        return any(admin.id == user.id for admin in self.administrators)


class Ambulance(Base):
    __tablename__ = "ambulances"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    registration_number = Column(String(30), unique=True, nullable=False)
    type = Column(_enum(AmbulanceType, "ambulance_type"), nullable=False, default=AmbulanceType.BASIC)
    capacity = Column(Integer, default=2)
    features = Column(JSON, default=list)
    hospital_id = Column(Uuid, ForeignKey("hospitals.id"))
    driver_id = Column(Uuid, ForeignKey("users.id"))
    status = Column(_enum(AmbulanceStatus, "ambulance_status"), nullable=False, default=AmbulanceStatus.OFFLINE)
    current_lat = Column(Float, nullable=False)
    current_lng = Column(Float, nullable=False)
    location_updated_at = Column(DateTime(timezone=True), default=utc_now)
    # Set together with status=busy; no FK to avoid a cycle with emergencies.ambulance_id
    active_emergency_id = Column(Uuid)
    last_maintenance_date = Column(DateTime(timezone=True))
    maintenance_schedule = Column(DateTime(timezone=True))
    mileage = Column(Float, default=0)
    device_token = Column(String(255))
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    # Relationships
    hospital = relationship("Hospital", back_populates="ambulances")
    driver = relationship("User", back_populates="driven_ambulances")
    emergencies = relationship("Emergency", back_populates="ambulance")

    __mapper_args__ = {"version_id_col": version}

    @property
    def current_location(self):
        return {"lat": self.current_lat, "lng": self.current_lng, "updated_at": self.location_updated_at}

    def occupy(self, emergency_id) -> None:
        self.status = AmbulanceStatus.BUSY
        self.active_emergency_id = emergency_id

    def release(self) -> None:
        self.status = AmbulanceStatus.AVAILABLE
        self.active_emergency_id = None

# ================================
# EMERGENCIES
# ================================

class Emergency(Base):
    __tablename__ = "emergencies"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    patient_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    requested_by_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    severity = Column(_enum(Severity, "emergency_severity"), nullable=False, default=Severity.MEDIUM)
    status = Column(_enum(EmergencyStatus, "emergency_status"), nullable=False, default=EmergencyStatus.PENDING)
    emergency_type = Column(_enum(EmergencyType, "emergency_type"), nullable=False, default=EmergencyType.OTHER)
    ambulance_id = Column(Uuid, ForeignKey("ambulances.id"))
    hospital_id = Column(Uuid, ForeignKey("hospitals.id"))

    # Location details
    pickup_address = Column(Text, nullable=False)
    pickup_lat = Column(Float, nullable=False)
    pickup_lng = Column(Float, nullable=False)
    destination_address = Column(Text)
    destination_lat = Column(Float)
    destination_lng = Column(Float)

    symptoms = Column(JSON, default=list)
    medical_notes = Column(Text)
    route = Column(JSON)  # {distance: {text, value}, duration: {text, value}, polyline}

    # Payment sub-document
    payment_amount = Column(Float)
    payment_status = Column(String(30))
    payment_method = Column(String(30))
    payment_transaction_id = Column(String(100))

    # Feedback
    feedback_rating = Column(Integer)
    feedback_comment = Column(Text)
    feedback_submitted_at = Column(DateTime(timezone=True))

    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    # Relationships
    patient = relationship("User", foreign_keys=[patient_id], back_populates="emergencies_as_patient")
    requested_by = relationship("User", foreign_keys=[requested_by_id], back_populates="emergencies_requested")
    ambulance = relationship("Ambulance", back_populates="emergencies")
    hospital = relationship("Hospital", back_populates="emergencies")
    timeline = relationship(
        "TimelineEntry",
        back_populates="emergency",
        cascade="all, delete-orphan",
        order_by="TimelineEntry.sequence",
    )
    payments = relationship("Payment", back_populates="emergency", cascade="all, delete-orphan")
    messages = relationship("Message", back_populates="emergency", cascade="all, delete-orphan")

    __mapper_args__ = {"version_id_col": version}

    def record(self, status: EmergencyStatus, notes: str = "") -> "TimelineEntry":
        """Append a timeline entry for the given status."""
        entry = TimelineEntry(
            status=TIMELINE_EVENTS.get(status, status.value),
            time=utc_now(),
            notes=notes or None,
            sequence=len(self.timeline),
        )
        self.timeline.append(entry)
        return entry

    @property
    def location(self):
        destination = None
        if self.destination_address or self.destination_lat is not None:
            destination = {
                "address": self.destination_address,
                "coordinates": {"lat": self.destination_lat, "lng": self.destination_lng},
            }
        return {
            "pickup": {
                "address": self.pickup_address,
                "coordinates": {"lat": self.pickup_lat, "lng": self.pickup_lng},
            },
            "destination": destination,
        }

    @property
    def payment(self):
        if self.payment_amount is None and self.payment_status is None:
            return None
        return {
            "amount": self.payment_amount,
            "status": self.payment_status,
            "method": self.payment_method,
            "transaction_id": self.payment_transaction_id,
        }

    @property
    def feedback(self):
        if self.feedback_rating is None:
            return None
        return {
            "rating": self.feedback_rating,
            "comment": self.feedback_comment,
            "submitted_at": self.feedback_submitted_at,
        }


class TimelineEntry(Base):
    __tablename__ = "emergency_timeline"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    emergency_id = Column(Uuid, ForeignKey("emergencies.id", ondelete="CASCADE"), nullable=False)
    sequence = Column(Integer, nullable=False)
    status = Column(String(50), nullable=False)
    time = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    notes = Column(Text)

    emergency = relationship("Emergency", back_populates="timeline")

# ================================
# PAYMENTS
# ================================

class Payment(Base):
    __tablename__ = "payments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    emergency_id = Column(Uuid, ForeignKey("emergencies.id"), nullable=False)
    patient_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    hospital_id = Column(Uuid, ForeignKey("hospitals.id"))
    amount = Column(Float, nullable=False)
    status = Column(_enum(PaymentStatus, "payment_status"), nullable=False, default=PaymentStatus.PENDING)
    method = Column(_enum(PaymentMethod, "payment_method"), nullable=False)
    transaction_id = Column(String(100), unique=True)
    payment_gateway = Column(_enum(PaymentGateway, "payment_gateway"), default=PaymentGateway.OTHER)
    card_info = Column(JSON)        # {last4, brand, expiry_month, expiry_year}
    insurance_info = Column(JSON)   # {provider, policy_number, coverage_percentage, approval_code, claim_status}
    invoice_number = Column(String(20))
    receipt_url = Column(String(255))
    notes = Column(Text)

    # Refund sub-document
    refund_amount = Column(Float)
    refund_reason = Column(Text)
    refund_status = Column(String(20))
    refund_transaction_id = Column(String(100))
    refund_processed_at = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    # Relationships
    emergency = relationship("Emergency", back_populates="payments")
    patient = relationship("User", foreign_keys=[patient_id])
    hospital = relationship("Hospital", back_populates="payments")

    def issue_invoice_number(self) -> str:
        if not self.invoice_number:
            now = utc_now()
            self.invoice_number = f"INV-{now:%y%m}-{random.randint(0, 9999):04d}"
        return self.invoice_number

    @property
    def payment_id(self) -> str:
        return f"PMT-{self.id.hex[-8:].upper()}"

    @property
    def refund(self):
        if self.refund_amount is None:
            return None
        return {
            "amount": self.refund_amount,
            "reason": self.refund_reason,
            "status": self.refund_status,
            "transaction_id": self.refund_transaction_id,
            "processed_at": self.refund_processed_at,
        }

# ================================
# COMMUNICATION
# ================================

class Message(Base):
    __tablename__ = "messages"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    emergency_id = Column(Uuid, ForeignKey("emergencies.id", ondelete="CASCADE"), nullable=False)
    sender_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    receiver_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    text = Column(Text, nullable=False)
    attachments = Column(JSON, default=list)  # [{type, url, metadata}]
    lat = Column(Float)
    lng = Column(Float)
    status = Column(_enum(MessageStatus, "message_status"), nullable=False, default=MessageStatus.SENT)
    read_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    # Relationships
    emergency = relationship("Emergency", back_populates="messages")
    sender = relationship("User", foreign_keys=[sender_id])
    receiver = relationship("User", foreign_keys=[receiver_id])

    @property
    def location(self):
        if self.lat is None or self.lng is None:
            return None
        return {"lat": self.lat, "lng": self.lng}

    @property
    def has_media(self) -> bool:
        return bool(self.attachments)

    def mark_read(self) -> None:
        self.status = MessageStatus.READ
        self.read_at = utc_now()
