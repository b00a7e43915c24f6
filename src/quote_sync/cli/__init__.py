"""Console driver for a single priced line item."""
