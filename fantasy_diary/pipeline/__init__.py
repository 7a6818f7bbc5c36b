"""Installment pipeline: tool-calling loop, phases, reconciliation, run trigger."""

from .loop import (  # noqa: F401
    MAX_ITERATIONS,
    MaxIterationsError,
    normalize_payload,
    run_tool_loop,
)

from .phases import (  # noqa: F401
    PhaseController,
    PhaseError,
    PhaseOrderError,
    make_summary,
)

from .reconciler import (  # noqa: F401
    RECONCILE_SENTINEL,
    Reconciler,
    create_or_update,
    is_duplicate_error,
    persist_installment,
)

from .orchestrator import (  # noqa: F401
    generate_installment,
    installment_id_for,
    parse_current_time,
)
