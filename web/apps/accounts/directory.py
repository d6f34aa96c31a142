"""Read access to user identity records for customer resolution.

The orders flow needs a flat view of the buyer (name, email, phone and the
tax document on file) to build the payment gateway customer. This module
maps the ``User``/``Person``/``Contact`` rows into a frozen ``CustomerProfile``
so the orchestrator never walks ORM relations itself.
"""

from dataclasses import dataclass
from typing import Optional

from .models import Contact, User


@dataclass(frozen=True)
class CustomerProfile:
    """Identity data of an active user.

    Attributes:
        user_id: Identifier of the user (string form of the UUID).
        name: Full name built from the person's first and last names.
        email: First non-deleted email contact, if any.
        phone: First non-deleted phone or whatsapp contact, if any.
        document: National registration (CPF/CNPJ) on file, unformatted.
    """

    user_id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    document: Optional[str] = None


class CustomerDirectory:
    """Looks up active users and their contact data."""

    def exists(self, user_id) -> bool:
        return User.objects.filter(id=user_id, deleted_at__isnull=True).exists()

    def get_profile(self, user_id) -> Optional[CustomerProfile]:
        """Return the profile of an active user, or None when absent/deleted."""
        user = (
            User.objects.select_related("person")
            .filter(id=user_id, deleted_at__isnull=True)
            .first()
        )
        if user is None:
            return None

        person = user.person
        contacts = list(person.contacts.filter(deleted_at__isnull=True))
        email = next((c.value for c in contacts if c.type == Contact.Type.EMAIL and c.value), None)
        phone = next(
            (
                c.value
                for c in contacts
                if c.type in (Contact.Type.PHONE, Contact.Type.WHATSAPP) and c.value
            ),
            None,
        )
        return CustomerProfile(
            user_id=str(user.id),
            name=person.full_name,
            email=email,
            phone=phone,
            document=person.national_registration,
        )
