"""Control-plane building blocks: context, shutdown, runtime, dispatch."""
