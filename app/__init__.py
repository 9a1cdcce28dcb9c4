"""Serviço de tracking de ventanas por puesto de trabalho."""
