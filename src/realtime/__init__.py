"""Real-time session routing over WebSockets."""
