from .export import ExportSink

__all__ = ['ExportSink']
