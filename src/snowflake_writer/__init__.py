"""
Snowflake Writer - bulk loads staged CSV data into Snowflake tables.

Data already uploaded to cloud storage (S3 or Azure Blob Storage) is copied
into a staging table and then either swapped into place (full load) or merged
into the target table (incremental load).
"""

__version__ = "0.1.0"
