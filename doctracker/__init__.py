"""Club document approval tracker."""
