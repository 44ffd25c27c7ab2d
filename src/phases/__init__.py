"""Phase sequences, actions and execution."""
