"""Services module for conversion jobs, progress tracking and expiry."""
from convert_app.services.conversion import ConversionService, Delivery
from convert_app.services.job_registry import JobRegistry

__all__ = ['ConversionService', 'Delivery', 'JobRegistry']
