"""Core relay components: registry, sender, dispatcher and poll loop."""
