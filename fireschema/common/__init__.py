"""Shared configuration, logging and error handling."""
