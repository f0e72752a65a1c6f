from marshmallow import Schema, fields, validate


class LineSchema(Schema):
    product_id = fields.Int(required=True, strict=True, data_key="productId", validate=validate.Range(min=1))
    variant_id = fields.Int(required=True, strict=True, data_key="variantId", validate=validate.Range(min=1))
    size_id = fields.Int(required=True, strict=True, data_key="sizeId", validate=validate.Range(min=1))


class AddItemSchema(LineSchema):
    quantity = fields.Int(load_default=1, strict=True, validate=validate.Range(min=1, max=99))
    unit_price = fields.Decimal(
        load_default=None,
        allow_none=True,
        data_key="unitPrice",
        validate=validate.Range(min=0, min_inclusive=False),
    )


class UpdateItemSchema(LineSchema):
    # zero removes the line
    quantity = fields.Int(required=True, strict=True, validate=validate.Range(min=0, max=99))


class RemoveItemSchema(LineSchema):
    pass
