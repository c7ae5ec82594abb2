"""Command wrapping, the pod API holder and container execution contexts."""