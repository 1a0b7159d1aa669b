"""Core bookmark store, storage backends and tree projection."""
