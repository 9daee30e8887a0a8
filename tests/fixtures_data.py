"""Reusable data for the backend test scenarios."""

TENANTS = [
    {"id": 1, "name": "Salon Aoyama", "slug": "salon-aoyama"},
    {"id": 2, "name": "Salon Ginza", "slug": "salon-ginza"},
]

ADMIN_ACCOUNT = {
    "id": 1,
    "tenant_id": 1,
    "email": "admin@salon.com",
    "name": "Admin",
    "role": "ADMIN",
    "password": "admin123",
}

STAFF_ACCOUNT = {
    "id": 2,
    "tenant_id": 1,
    "email": "stylist@salon.com",
    "name": "Stylist",
    "role": "STAFF",
    "password": "stylist123",
}

MANAGER_ACCOUNT = {
    "id": 3,
    "tenant_id": 1,
    "email": "manager@salon.com",
    "name": "Manager",
    "role": "MANAGER",
    "password": "manager123",
}

OTHER_TENANT_ADMIN = {
    "id": 4,
    "tenant_id": 2,
    "email": "owner@ginza-salon.com",
    "name": "Ginza Owner",
    "role": "ADMIN",
    "password": "ginza12345",
}

CUSTOMERS = [
    {"id": 1, "tenant_id": 1, "name": "Yuki Tanaka", "phone": "090-1111-2222"},
    {"id": 2, "tenant_id": 1, "name": "Hana Sato", "phone": "090-3333-4444"},
    {"id": 3, "tenant_id": 2, "name": "Ren Suzuki", "phone": "080-5555-6666"},
]

BACKUP_CODES = ["AAAA1111", "BBBB2222", "CCCC3333"]
