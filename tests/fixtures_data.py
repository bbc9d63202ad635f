"""Conjunto de dados reutilizável para cenários de teste backend."""

HAPPY_PATH_ADMIN = {
    "id": 7,
    "email": "admin@example.com",
    "name": "Admin",
    "role": "owner",
    "active": True,
}

STAFF_ADMIN = {
    "id": 8,
    "email": "staff@example.com",
    "name": "Staff",
    "role": "staff",
    "active": True,
}

SHIPPING_ADDRESS = {
    "first_name": "Jan",
    "last_name": "Kowalski",
    "company": None,
    "address_line1": "ul. Prosta 10",
    "address_line2": None,
    "city": "Warszawa",
    "state_province": "Mazowieckie",
    "postal_code": "00-001",
    "country": "PL",
    "phone": "+48500100200",
}

CHECKOUT_PAYLOAD = {
    "email": "jan@example.com",
    "phone": "+48500100200",
    "shipping_address": SHIPPING_ADDRESS,
    "same_as_shipping": True,
    "payment_method": "transfer",
    "notes": "Leave at the door",
}

TEST10_DISCOUNT = {
    "code": "test10",
    "description": "10% off",
    "discount_type": "percentage",
    "discount_value": 10,
    "usage_type": "unlimited",
}

OVER_100_PERCENT_DISCOUNT = {
    "code": "HALFPLUS",
    "discount_type": "percentage",
    "discount_value": 150,
}

FIXED_150_DISCOUNT = {
    "code": "FLAT150",
    "discount_type": "fixed_amount",
    "discount_value": 150,
}
