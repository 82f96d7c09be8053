"""SCASH wallet core: keys, fees, selection, signing and history."""
