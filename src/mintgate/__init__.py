"""mintgate — mint authorization and supply accounting engine."""
