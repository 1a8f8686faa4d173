from calibration_steps.apply_correction import flat_test, response_test

if __name__ == "__main__":
    total_passed = 0
    total_passed += flat_test()
    total_passed += response_test()
    print(f"{total_passed} of 2 self-tests passed")
