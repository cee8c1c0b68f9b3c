"""tokengate — record storage with role-gated tokenization of personal fields."""
