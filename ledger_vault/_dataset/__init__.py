from .postgrest import PostgrestDataset

__all__ = ["PostgrestDataset"]
