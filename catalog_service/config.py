"""Catalog service settings."""

import os

SERVICE_NAME = "catalog-service"
DB_PATH = os.getenv("DB_PATH", "/data/catalog.db")
CLIENT_ID = os.getenv("CLIENT_ID", "catalog-service")
GROUP_ID = os.getenv("GROUP_ID", "catalog-service-group")
