"""
Domain errors

Services raise these; the exception handler in main.py turns them into
``{"error": ..., "code": ...}`` responses with the class's HTTP status.
"""

from typing import Optional


class AppError(Exception):
    code = "GEN-990001"
    message = "An internal error occurred"
    status_code = 500

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.message
        super().__init__(self.message)

    def __str__(self):
        return f"{self.code}: {self.message}"


# ----------------------------------------------------------------------------
# Transactions / credit card import
# ----------------------------------------------------------------------------
class TransactionNotFound(AppError):
    code = "TXN-010004"
    message = "transaction not found"
    status_code = 404


class DescriptionTooLong(AppError):
    code = "TXN-010008"
    message = "description must not exceed 255 characters"
    status_code = 400


class NotesTooLong(AppError):
    code = "TXN-010009"
    message = "notes must not exceed 1000 characters"
    status_code = 400


class InvalidBillingCycle(AppError):
    code = "TXN-020001"
    message = "billing cycle must be in YYYY-MM format"
    status_code = 400


class BillPaymentNotFound(AppError):
    code = "TXN-020002"
    message = "bill payment transaction not found"
    status_code = 404


class BillNotExpanded(AppError):
    code = "TXN-020003"
    message = "bill is not expanded"
    status_code = 400


class BillAlreadyExpanded(AppError):
    code = "TXN-020004"
    message = "bill is already expanded with credit card transactions"
    status_code = 400


class EmptyStatementLines(AppError):
    code = "TXN-020006"
    message = "at least one transaction is required"
    status_code = 400


class PersistenceError(AppError):
    code = "TXN-990001"
    message = "failed to persist changes"
    status_code = 500


# ----------------------------------------------------------------------------
# Categories
# ----------------------------------------------------------------------------
class CategoryNotFound(AppError):
    code = "CAT-010004"
    message = "category not found"
    status_code = 404


class CategoryNameExists(AppError):
    code = "CAT-010005"
    message = "a category with this name already exists"
    status_code = 409


# ----------------------------------------------------------------------------
# Category rules
# ----------------------------------------------------------------------------
class CategoryRuleNotFound(AppError):
    code = "CRL-010001"
    message = "category rule not found"
    status_code = 404


class RulePatternExists(AppError):
    code = "CRL-010002"
    message = "a rule with this pattern already exists"
    status_code = 409


class InvalidPattern(AppError):
    code = "CRL-010003"
    message = "invalid regex pattern"
    status_code = 400


class PatternTooLong(AppError):
    code = "CRL-010004"
    message = "pattern must not exceed 255 characters"
    status_code = 400
