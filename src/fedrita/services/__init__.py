from fedrita.services.appointments import AppointmentService
from fedrita.services.clients import ClientService
from fedrita.services.companies import CompanyService, LogoUpload
from fedrita.services.dashboard import AdminStats, DashboardService, ManagerStats
from fedrita.services.employees import EmployeeService, salon_options
from fedrita.services.salons import SalonService

__all__ = [
    "AdminStats",
    "AppointmentService",
    "ClientService",
    "CompanyService",
    "DashboardService",
    "EmployeeService",
    "LogoUpload",
    "ManagerStats",
    "SalonService",
    "salon_options",
]
