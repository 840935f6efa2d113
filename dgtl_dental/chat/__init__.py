"""Chat surfaces: templated answers, widget sessions and the guided intake flow."""
