"""Real-time 1:1 chat: socket lifecycle, registration and message fan-out."""
