"""
Central constants for the Caixa application.
"""
from __future__ import annotations

from decimal import Decimal

# Transaction lifecycle
TX_INCOME = "INCOME"
TX_EXPENSE = "EXPENSE"
TRANSACTION_TYPES = (TX_INCOME, TX_EXPENSE)

TX_PENDING = "PENDING"
TX_APPROVED = "APPROVED"
TX_REJECTED = "REJECTED"
TRANSACTION_STATUSES = (TX_PENDING, TX_APPROVED, TX_REJECTED)
# Statuses an admin may move a PENDING transaction to.
DECISION_STATUSES = (TX_APPROVED, TX_REJECTED)

MAX_AMOUNT = Decimal("999999999.99")

# Payment plans
PLAN_PENDING = "PENDING"
PLAN_PAID = "PAID"
PLAN_OVERDUE = "OVERDUE"
PLAN_STATUSES = (PLAN_PENDING, PLAN_PAID, PLAN_OVERDUE)

# Roles
ROLE_ADMIN = "admin"
ROLE_USER = "user"
ROLE_KEYS = (ROLE_USER, ROLE_ADMIN)

# Field limits
CATEGORY_NAME_MAX = 100
DESCRIPTION_MAX = 200
USER_NAME_MAX = 200
PASSWORD_MIN = 8
PASSWORD_MAX = 128
PLAN_TEXT_MAX = 200
PLAN_RESPONSIBLE_MAX = 100

# Permission keys -> display names. Role "user" gets USER_PERMISSIONS, "admin" gets all.
PERMISSIONS = {
    "dashboard.view": "Dashboard: view",
    "transactions.create": "Transactions: create",
    "transactions.approve": "Transactions: approve/reject",
    "categories.manage": "Categories: manage own",
    "planning.manage": "Payment plans: manage own",
    "users.manage": "Users: manage accounts",
}
USER_PERMISSIONS = (
    "dashboard.view",
    "transactions.create",
    "categories.manage",
    "planning.manage",
)
