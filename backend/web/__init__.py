"""Level Up web client: configuration, access gate and page shells."""
