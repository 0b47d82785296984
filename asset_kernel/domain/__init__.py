"""Pure functional core: no sessions, no I/O, time only via an injected Clock."""
