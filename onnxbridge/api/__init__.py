"""HTTP serving for loaded onnxbridge sessions."""
