"""
fabric_planner

This package plans and prices the hardware for leaf spine data center fabrics.

We keep modules small and well separated:
core contains shared data structures, errors and serialization
catalog contains the SKU table and the switch model table
fabric contains sizing, rules, port allocation and border validation
bom contains the bill of materials compiler

Every public operation is a pure function over immutable inputs.
"""
