from app.models.entities import (
    Application,
    AuditLog,
    ClassCode,
    HealthCheck,
    PremiumRule,
    Quote,
    RatingFactor,
    RatingTable,
    StateFactor,
    Territory,
    VerifiedBusinessName,
)

__all__ = [
    "Application",
    "AuditLog",
    "ClassCode",
    "HealthCheck",
    "PremiumRule",
    "Quote",
    "RatingFactor",
    "RatingTable",
    "StateFactor",
    "Territory",
    "VerifiedBusinessName",
]
