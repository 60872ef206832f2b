"""recordimport: continuous importer of workflow-engine log records."""
