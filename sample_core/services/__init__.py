# sample_core/services/__init__.py
