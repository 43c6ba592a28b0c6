from .persister import Persister
