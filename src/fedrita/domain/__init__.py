from fedrita.domain.models import (
    AdminGrant,
    Appointment,
    Client,
    Company,
    Employee,
    Identity,
    ManagerGrant,
    NoGrant,
    Profile,
    Role,
    Salon,
    Session,
)

__all__ = [
    "AdminGrant",
    "Appointment",
    "Client",
    "Company",
    "Employee",
    "Identity",
    "ManagerGrant",
    "NoGrant",
    "Profile",
    "Role",
    "Salon",
    "Session",
]
