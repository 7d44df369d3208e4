"""
Reading Ingester - Meter reading CSV ingestion into DynamoDB.

Uploaded CSV exports are decoded as a stream, turned into interval
readings and committed without duplicating readings already stored.
"""

__version__ = "0.1.0"
