"""
Customer account models.

This module defines the storefront's user model:
- User: Email-identified account with an admin/customer role

Related files:
    - managers.py: Custom user manager for email-based creation

Refund permissions key off User.is_admin; everything else about an account
(profile data, addresses) lives outside the refund domain.
"""

from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.db import models

from customers.managers import UserManager


class UserRole(models.TextChoices):
    """
    Storefront roles.

    ADMIN may approve, reject and process refunds for any order.
    CUSTOMER may only act on refund requests for their own orders.
    """

    ADMIN = "admin", "Admin"
    CUSTOMER = "customer", "Customer"


class User(AbstractBaseUser, PermissionsMixin):
    """
    Custom User model using email as the primary identifier.

    Fields:
        email: Primary identifier, unique, used for login
        role: Storefront role (admin or customer)
        is_active: Whether the account is active
        is_staff: Whether the user can access Django admin
        date_joined: When the account was created
        updated_at: When the record was last modified
    """

    email = models.EmailField(
        unique=True,
        db_index=True,
        max_length=254,
        help_text="User's email address (primary identifier)",
    )
    role = models.CharField(
        max_length=20,
        choices=UserRole.choices,
        default=UserRole.CUSTOMER,
        db_index=True,
        help_text="Storefront role controlling refund administration rights",
    )

    is_active = models.BooleanField(
        default=True,
        help_text="Whether this user account is active. Deselect instead of deleting.",
    )
    is_staff = models.BooleanField(
        default=False,
        help_text="Whether the user can access the admin site.",
    )

    date_joined = models.DateTimeField(
        auto_now_add=True,
        help_text="When the user account was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="When the user record was last modified",
    )

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        verbose_name = "user"
        verbose_name_plural = "users"
        ordering = ["-date_joined"]

    def __str__(self):
        return self.email

    @property
    def is_admin(self) -> bool:
        """Whether this account may administer refunds."""
        return self.role == UserRole.ADMIN or self.is_staff
