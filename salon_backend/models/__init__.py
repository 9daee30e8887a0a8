from salon_backend.models.tenant import Tenant
from salon_backend.models.staff import Staff
from salon_backend.models.security_event import SecurityEvent
from salon_backend.models.customer import Customer
from salon_backend.models.reservation import Reservation
