from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class LoginForm(BaseModel):
    email: str = Field(min_length=3)
    password: str = Field(min_length=1)


class RegisterForm(BaseModel):
    email: str = Field(min_length=3)
    password: str = Field(min_length=6)
    confirm_password: str
    accept_terms: bool = False


class CompanyForm(BaseModel):
    name: str = Field(min_length=1)
    phone: Optional[str] = None
    contact_email: Optional[str] = None  # falls back to the identity email
    whatsapp_url: Optional[str] = None


class SalonForm(BaseModel):
    name: str = Field(min_length=1)
    address: Optional[str] = None
    phone: Optional[str] = None
    opening_hours: Optional[str] = None


class EmployeeForm(BaseModel):
    salon_id: Optional[str] = None  # managers may omit it: their salon is implied
    name: str = Field(min_length=1)
    specialty: Optional[str] = None
    availability: Optional[str] = None
    is_manager: bool = False
    employee_email: Optional[str] = None  # required when is_manager


NO_PREFERENCE = "no-preference"


class AppointmentForm(BaseModel):
    salon_id: Optional[str] = None
    employee_id: Optional[str] = None  # NO_PREFERENCE or None -> any employee
    client_name: str = ""
    client_email: Optional[str] = None
    client_phone: Optional[str] = None
    service: Optional[str] = None
    appointment_time: Optional[datetime] = None


class AppointmentUpdate(BaseModel):
    client_name: Optional[str] = None
    client_email: Optional[str] = None
    client_phone: Optional[str] = None
    service: Optional[str] = None
    appointment_time: Optional[datetime] = None
