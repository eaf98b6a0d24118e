"""Tour booking engine: capacity, pricing, lifecycle and authorization rules."""
