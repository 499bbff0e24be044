from .orm import Base, Ticket, MAX_TICKETS_PER_TAXPAYER

__all__ = ["Base", "Ticket", "MAX_TICKETS_PER_TAXPAYER"]
