from .job import JobService

__all__ = ['JobService']
