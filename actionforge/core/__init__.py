"""Remote-API orchestration core: transport, gateways, state machine."""
