"""Live heatmaps of keyed aggregations over a rolling time window."""
