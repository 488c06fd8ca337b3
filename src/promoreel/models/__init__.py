from promoreel.db.database import Base

# Import all models so metadata knows about every table
from .store import Store
from .generation_job import GenerationJob, JobStatus
