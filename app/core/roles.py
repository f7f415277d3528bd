from enum import Enum


class Role(str, Enum):
    DISPATCHER = "DISPATCHER"
    BOOKING_OFFICER = "BOOKING_OFFICER"
    FIELD_OFFICER = "FIELD_OFFICER"
    ACCOUNTANT = "ACCOUNTANT"
    ADMIN = "ADMIN"
