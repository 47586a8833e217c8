"""Category hierarchy service and admin bot for the shop catalog"""
