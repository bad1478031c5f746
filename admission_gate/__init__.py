"""
admission_gate — admits queued workloads once the data operation they wait
on has completed.

Layout:
    shared/         models, condition upsert, errors, ControllerConfig
    cluster/        object store + event recorder contracts (in-memory impls)
    control_plane/  AdmissionController, GateActivator, ReconcileDriver
"""

__version__ = "0.1.0"
